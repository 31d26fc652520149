"""Resolution and merging of configured metadata providers."""

from __future__ import annotations

import importlib
import inspect
from collections.abc import Callable, Iterable
from typing import Any

from dumpguard.core.exceptions import InvalidMetadataProviderError
from dumpguard.core.models import DEFAULT_METADATA_PROVIDERS
from dumpguard.logging import get_logger
from dumpguard.metadata.providers import BUILTIN_PROVIDERS, MetadataProvider, ProviderContext

log = get_logger(__name__)

ProviderFactory = Callable[[ProviderContext], Any]


class MetadataProviderRegistry:
    """Ordered list of provider entries resolved against a ProviderContext.

    An entry may be a built-in or registered name, a ``"module:attr"``
    reference, a class, a factory callable or a ready provider instance.
    Classes and factories that accept an argument receive the context.
    """

    def __init__(
            self,
            context: ProviderContext,
            entries: Iterable[Any] | None = None,
            factories: dict[str, ProviderFactory] | None = None,
    ) -> None:
        self._context = context
        self._entries = list(DEFAULT_METADATA_PROVIDERS if entries is None else entries)
        self._factories: dict[str, ProviderFactory] = dict(BUILTIN_PROVIDERS)
        if factories:
            self._factories.update(factories)

    @property
    def entries(self) -> list[Any]:
        return list(self._entries)

    def register(self, name: str, factory: ProviderFactory) -> None:
        """Make *factory* resolvable under *name*."""
        self._factories[name] = factory

    # ────────────── Resolution ──────────────

    def resolve(self, entry: Any) -> MetadataProvider:
        """Turn one configured entry into a provider instance.

        Raises:
            InvalidMetadataProviderError: If the entry cannot be resolved or the
                result lacks get_key(), should_append() or get_metadata().
        """
        target = entry
        if isinstance(entry, str):
            target = self._factories.get(entry) or self._import(entry)

        if isinstance(target, MetadataProvider) and not isinstance(target, type):
            return target

        if callable(target):
            try:
                provider = target(self._context) if _accepts_argument(target) else target()
            except TypeError as exc:
                raise InvalidMetadataProviderError(entry) from exc
            if isinstance(provider, MetadataProvider):
                return provider

        raise InvalidMetadataProviderError(entry)

    def providers(self) -> list[MetadataProvider]:
        return [self.resolve(entry) for entry in self._entries]

    def _import(self, reference: str) -> Any:
        module_name, _, attr = reference.partition(":")
        if not attr:
            raise InvalidMetadataProviderError(reference)
        try:
            module = importlib.import_module(module_name)
            target: Any = module
            for part in attr.split("."):
                target = getattr(target, part)
        except (ImportError, AttributeError) as exc:
            raise InvalidMetadataProviderError(reference) from exc
        return target

    # ────────────── Merging ─────────────────

    def get_metadata(self) -> dict[str, Any]:
        """Collect the blocks of all providers that want to be appended.

        Later providers win on key collisions. Two mapping blocks under the
        same key are shallow-merged with the later fields taking precedence.
        """
        metadata: dict[str, Any] = {}
        for provider in self.providers():
            if not provider.should_append():
                continue
            key = provider.get_key()
            block = provider.get_metadata()
            existing = metadata.get(key)
            if isinstance(existing, dict) and isinstance(block, dict):
                metadata[key] = {**existing, **block}
            else:
                metadata[key] = block
            log.debug("metadata_block_added", provider=key)
        return metadata


def _accepts_argument(target: Callable[..., Any]) -> bool:
    try:
        params = inspect.signature(target).parameters.values()
    except (TypeError, ValueError):
        return False
    return any(
        p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.VAR_POSITIONAL)
        for p in params
    )

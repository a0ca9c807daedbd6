"""共通プロバイダ基底クラス。"""

from __future__ import annotations

from abc import ABC, abstractmethod
import os

from ..errors import ProviderUnavailable, UnavailableReason
from ..provider_spi import ProviderSPI, Task

__all__ = ["BaseProvider", "resolve_api_key"]


def resolve_api_key(
    explicit: str | None,
    env_var: str,
    *,
    provider: str,
    reason: UnavailableReason | str,
) -> str:
    """Return the credential or raise :class:`ProviderUnavailable` before any call."""
    value = (explicit or os.getenv(env_var) or "").strip()
    if not value:
        raise ProviderUnavailable(f"{provider}: {env_var} not set", reason=reason)
    return value


class BaseProvider(ProviderSPI, ABC):
    """ProviderSPI 実装向けの共通ユーティリティ。"""

    _name: str
    _model: str | None

    def __init__(self, *, name: str, model: str | None = None) -> None:
        name_text = name.strip()
        if not name_text:
            raise ValueError("provider name must be a non-empty string")
        self._name = name_text

        if model is None:
            self._model = None
        else:
            model_text = model.strip()
            if not model_text:
                raise ValueError("provider model must be a non-empty string")
            self._model = model_text

    def name(self) -> str:
        return self._name

    @property
    def model(self) -> str | None:
        return self._model

    @abstractmethod
    def invoke(self, task: Task, time_budget_s: float) -> str:
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r}, model={self._model!r})"

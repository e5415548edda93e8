"""Environment variable resolution through the ``sys:env,hook:vars`` chain.

The resolver registers the first stage of the chain, answering with the
variables it was configured with (optionally on top of ``os.environ``).
Plugins installed afterwards override the pattern and call ``prior`` to
extend the result, which is how Key Vault secrets end up in the variables.
"""
from __future__ import annotations

import os
import re
from typing import Any, Mapping

from .messaging import ActionContext, MessageRouter
from .plugin import ENV_VARS

_VAR_REF = re.compile(r"\$(?:\{(?P<braced>[A-Za-z_][\w.-]*)\}|(?P<bare>[A-Za-z_][\w.-]*))")


class EnvResolver:
    """First stage of the variables chain plus ``$NAME`` substitution."""

    def __init__(
        self,
        router: MessageRouter,
        var: Mapping[str, str] | None = None,
        *,
        include_os_environ: bool = False,
    ) -> None:
        self.router = router
        self._base = dict(var or {})
        self._include_os_environ = include_os_environ
        self.var: dict[str, Any] = {}
        router.add(ENV_VARS, self._base_vars)

    async def _base_vars(self, msg: Mapping[str, Any], ctx: ActionContext) -> dict[str, Any]:
        base: dict[str, Any] = dict(os.environ) if self._include_os_environ else {}
        base.update(self._base)
        return base

    async def resolve(self) -> dict[str, Any]:
        """Run the chain once and keep the merged variables."""

        self.var = dict(await self.router.act(ENV_VARS) or {})
        return self.var

    def inject_vars(self, text: str) -> str:
        """Replace ``$NAME`` and ``${NAME}`` with resolved values; unknown names stay."""

        def _sub(match: re.Match[str]) -> str:
            name = match.group("braced") or match.group("bare")
            if name in self.var:
                return str(self.var[name])
            return match.group(0)

        return _VAR_REF.sub(_sub, text)


__all__ = ["EnvResolver"]

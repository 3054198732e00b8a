"""JSON envelope output for CLI commands.

Every command prints exactly one envelope::

    {"success": bool, "data": {...}, "error": str | null, "meta": {...}}

``emit_error`` exits with status 1.
"""

import json
from typing import Any, Mapping, NoReturn, Optional

import click

from chatrelay import __version__
from chatrelay.core.errors import error_codes_for

RESPONSE_VERSION = "response-v2"


def _meta(extra: Optional[Mapping[str, Any]] = None) -> dict:
    meta = {"version": RESPONSE_VERSION, "chatrelay_version": __version__}
    if extra:
        meta.update(extra)
    return meta


def _emit(payload: Mapping[str, Any]) -> None:
    click.echo(json.dumps(payload, indent=2, default=str, ensure_ascii=False))


def emit_success(data: Mapping[str, Any], *, meta: Optional[Mapping[str, Any]] = None) -> None:
    _emit({"success": True, "data": dict(data), "error": None, "meta": _meta(meta)})


def emit_error(
    message: str,
    *,
    code: str = "INTERNAL_ERROR",
    error_type: str = "internal",
    remediation: Optional[str] = None,
    details: Optional[Mapping[str, Any]] = None,
) -> NoReturn:
    """Print an error envelope and exit with status 1."""
    data: dict = {"error_code": code, "error_type": error_type}
    if remediation is not None:
        data["remediation"] = remediation
    if details:
        data["details"] = dict(details)
    _emit({"success": False, "data": data, "error": message, "meta": _meta()})
    raise SystemExit(1)


def emit_exception(exc: BaseException, *, remediation: Optional[str] = None) -> NoReturn:
    """Emit an error envelope for a chatrelay exception using its mapped codes."""
    code, error_type = error_codes_for(exc)
    emit_error(str(exc), code=code, error_type=error_type, remediation=remediation)

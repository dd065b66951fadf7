"""JSON output helpers for the crank CLI.

This module is the sole output mechanism for the CLI: success envelopes go
to stdout, error envelopes to stderr, both in the response-v2 shape from
crank_mcp.core.responses.
"""

import json
import sys
from dataclasses import asdict
from typing import Any, Mapping, NoReturn, Sequence

from crank_mcp.core.responses import error_response, success_response


def emit(data: Any) -> None:
    """Emit minified JSON to stdout."""
    print(json.dumps(data, separators=(",", ":"), default=str))


def emit_error(
    message: str,
    code: str = "INTERNAL_ERROR",
    *,
    error_type: str = "internal",
    remediation: str | None = None,
    details: Mapping[str, Any] | None = None,
) -> NoReturn:
    """Emit error JSON to stderr and exit with code 1.

    Raises:
        SystemExit: Always exits with code 1.
    """
    response = error_response(
        message,
        error_code=code,
        error_type=error_type,
        remediation=remediation,
        details=details,
    )
    print(json.dumps(asdict(response), separators=(",", ":"), default=str), file=sys.stderr)
    sys.exit(1)


def emit_success(
    data: Any,
    *,
    warnings: Sequence[str] | None = None,
    telemetry: Mapping[str, Any] | None = None,
) -> None:
    """Emit a success envelope to stdout; non-dict data goes under ``result``."""
    payload = data if isinstance(data, dict) else {"result": data}
    response = success_response(data=payload, warnings=warnings, telemetry=telemetry)
    emit(asdict(response))

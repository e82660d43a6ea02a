from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    user_id: str | None
    email: str | None
    trace_id: str


def build_request_context(
    *,
    user_id: str | None,
    email: str | None,
    trace_id: str,
) -> RequestContext:
    return RequestContext(user_id=user_id, email=email, trace_id=trace_id)


def trace_id_of(request: Request) -> str:
    return getattr(request.state, "trace_id", "")

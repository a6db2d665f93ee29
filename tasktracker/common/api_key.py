from secrets import compare_digest
from fastapi import Depends, HTTPException, Security, status
from fastapi.security.api_key import APIKeyHeader

from tasktracker.config import Settings, get_settings


tracker_api_key_header = APIKeyHeader(name="x-api-key", auto_error=False)


def require_api_key(
    api_key: str | None = Security(tracker_api_key_header),
    settings: Settings = Depends(get_settings),
) -> None:
    """Reject requests without the configured key; open when none is set."""
    expected = settings.TRACKER_API_KEY
    if not expected:
        return

    if not api_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is missing",
        )

    if not compare_digest(api_key.encode(), expected.encode()):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is invalid",
        )

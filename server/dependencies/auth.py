from fastapi import Header, HTTPException, Request


async def verify_api_key(request: Request, x_api_key: str = Header(...)) -> None:
    """Verify the X-Api-Key header against the configured API key.

    Args:
        request (Request): The FastAPI request object (provides app.state).
        x_api_key (str): The value of the X-Api-Key header.

    Raises:
        HTTPException: 401 if the key is missing or does not match.
    """
    helper_config = request.app.state.helper_config
    expected_key = helper_config.get_string_val("API_SERVER_API_KEY")
    if x_api_key != expected_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


async def get_current_user_id(x_user_id: str = Header(...)) -> str:
    """Return the authenticated user id set by the upstream gateway in X-User-Id.

    The gateway is trusted; every repository and index lookup is scoped to this id.

    Raises:
        HTTPException: 401 if the header is blank.
    """
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user id")
    return user_id

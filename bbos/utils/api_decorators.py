"""
API decorators for error handling
"""
from functools import wraps
from fastapi import HTTPException
from bbos.core.exceptions import DataCollectionError
import logging

logger = logging.getLogger(__name__)


def handle_api_errors(func):
    """Decorator to handle API errors"""
    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except (HTTPException, DataCollectionError):
            # Domain errors are rendered by the application's exception handler
            raise
        except Exception as e:
            logger.error(f"API error in {func.__name__}: {str(e)}", exc_info=True)
            action = func.__name__.replace("_", " ")
            raise HTTPException(status_code=500, detail=f"Failed to {action}: {str(e)}")
    return wrapper


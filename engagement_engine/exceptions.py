"""
Standardized exception hierarchy for the engagement engine
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class EngagementError(Exception):
    """
    Base exception for all engagement engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise EngagementError(
            message="Failed to credit XP",
            user_id="user-123",
            operation="claim_mission",
            context={"mission_id": "abc-123"}
        )
    """

    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation & Configuration Errors
# ==========================================

class ValidationError(EngagementError):
    """
    Raised when caller input fails validation

    Examples:
    - Non-positive progress amount
    - Naive datetime from an injected clock
    - Mission generation requested for SPECIAL period
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


class ConfigurationError(EngagementError):
    """Engine configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Lookup Errors
# ==========================================

class RecordNotFoundError(EngagementError):
    """Requested record does not exist"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class MissionNotFoundError(RecordNotFoundError):
    """Mission is absent or belongs to another user"""

    def __init__(self, mission_id: str, **kwargs):
        self.mission_id = mission_id
        super().__init__(
            message=f"Mission {mission_id} not found",
            record_type="Mission",
            record_id=mission_id,
            **kwargs
        )


class MissionTemplateNotFoundError(RecordNotFoundError):
    """No catalog template with this key"""

    def __init__(self, mission_key: str, **kwargs):
        self.mission_key = mission_key
        super().__init__(
            message=f"Mission template '{mission_key}' not found",
            record_type="Mission template",
            record_id=mission_key,
            **kwargs
        )


# ==========================================
# Claim Errors
# ==========================================

class ClaimError(EngagementError):
    """Base class for rejected reward claims"""

    log_level = logging.WARNING

    def __init__(self, message: str, mission_id: Optional[str] = None, **kwargs):
        self.mission_id = mission_id
        kwargs.setdefault("context", {"mission_id": mission_id})
        super().__init__(message=message, **kwargs)


class MissionNotCompletedError(ClaimError):
    """Claim attempted before the mission reached its target"""

    def __init__(self, mission_id: str, **kwargs):
        super().__init__(
            message=f"Mission {mission_id} not completed",
            mission_id=mission_id,
            user_message="Finish the mission before claiming its reward.",
            **kwargs
        )


class MissionAlreadyClaimedError(ClaimError):
    """Reward for this mission was already credited"""

    def __init__(self, mission_id: str, **kwargs):
        super().__init__(
            message=f"Mission {mission_id} already claimed",
            mission_id=mission_id,
            user_message="This reward has already been claimed.",
            **kwargs
        )


# ==========================================
# Store Errors
# ==========================================

class StoreError(EngagementError):
    """
    Base class for persistence store failures
    """
    pass


class StoreUnavailableError(StoreError):
    """Persistence store could not complete the operation"""

    def __init__(
        self,
        message: str = "Persistence store unavailable",
        query: Optional[str] = None,
        **kwargs
    ):
        self.query = query
        kwargs.setdefault("context", {"query": query})
        super().__init__(
            message=message,
            user_message="We're having trouble saving your progress. Please try again in a moment.",
            **kwargs
        )


class ConcurrentUpdateError(StoreError):
    """A compare-and-set write kept losing to concurrent writers"""

    log_level = logging.WARNING

    def __init__(self, message: str, record_type: Optional[str] = None, **kwargs):
        self.record_type = record_type
        super().__init__(
            message=message,
            user_message="Your progress was updated elsewhere. Please try again.",
            context={"record_type": record_type},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_store_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> EngagementError:
    """
    Wrap driver exceptions (psycopg) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate EngagementError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_store_exception(e, operation="conditional_claim") from e
    """
    import psycopg

    if isinstance(error, EngagementError):
        return error

    if isinstance(error, psycopg.OperationalError):
        return StoreUnavailableError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return StoreUnavailableError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return EngagementError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )

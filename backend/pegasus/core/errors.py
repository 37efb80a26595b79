"""
Service errors - raised by the service layer, rendered by the app's exception handlers
"""

from typing import Optional, Dict, Any


class ServiceError(Exception):
    """Base service error"""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.response_data = response_data or {}
        super().__init__(self.message)

    def to_response(self) -> Dict[str, Any]:
        return {"error": self.message, **self.response_data}


class InvalidRequestError(ServiceError):
    """Missing or invalid input"""
    status_code = 400


class TicketNotFoundError(ServiceError):
    """Ticket disappeared while being written to"""
    status_code = 404

    def __init__(self, ticket_id: str):
        super().__init__("Ticket not found", response_data={"ticketId": ticket_id})


class UserNotFoundError(ServiceError):
    """No identity record under either id form"""
    status_code = 404

    def __init__(self, user_id: str):
        super().__init__("User not found", response_data={"userId": user_id})


class QuotaExceededError(ServiceError):
    """Token increment would push usage past the user's limit"""
    status_code = 429

    def __init__(self, current_usage: int, token_limit: int, tokens_to_add: int):
        self.would_exceed_by = current_usage + tokens_to_add - token_limit
        super().__init__(
            "Token limit exceeded",
            response_data={
                "currentUsage": current_usage,
                "tokenLimit": token_limit,
                "tokensToAdd": tokens_to_add,
                "wouldExceedBy": self.would_exceed_by,
            }
        )

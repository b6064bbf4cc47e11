"""Domain errors surfaced to the HTTP layer.

Plan errors carry everything a client needs to render an upgrade prompt
(``to_dict``), so nobody has to parse ``message``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from enum import Enum

    from .constants import Feature, Permission, Plan


class PlanLimitError(Exception):
    status_code = 402
    code = "PLAN_LIMIT_REACHED"

    def __init__(
        self,
        message: str,
        current_plan: Plan,
        required_plan: Plan | None = None,
        feature: Feature | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.current_plan = current_plan
        self.required_plan = required_plan
        self.feature = feature
        self.upgrade_suggested = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "upgrade_suggested": self.upgrade_suggested,
            "current_plan": self.current_plan.value,
            "required_plan": self.required_plan.value if self.required_plan else None,
            "feature": self.feature.value if self.feature else None,
        }


class PlanLimitReached(PlanLimitError):
    def __init__(self, current_plan: Plan, max_users: int) -> None:
        super().__init__(
            f"{current_plan.value} plan supports up to {max_users} users. "
            "Upgrade to add more team members.",
            current_plan,
        )
        self.max_users = max_users


class FeatureNotAvailable(PlanLimitError):
    def __init__(self, feature: Feature, current_plan: Plan, required_plan: Plan) -> None:
        super().__init__(
            f"{feature.display_name} is not available on your {current_plan.value} plan. "
            f"Upgrade to {required_plan.value} to unlock this feature.",
            current_plan,
            required_plan=required_plan,
            feature=feature,
        )


class PlanExpired(PlanLimitError):
    code = "PLAN_EXPIRED"

    def __init__(self, current_plan: Plan) -> None:
        super().__init__(
            "Your plan has expired. Please renew to continue using premium features.",
            current_plan,
        )


class PlanSuspended(PlanLimitError):
    code = "PLAN_SUSPENDED"

    def __init__(self, current_plan: Plan) -> None:
        super().__init__("Your plan is suspended. Please contact support.", current_plan)


class InvalidTransition(Exception):
    status_code = 409
    code = "INVALID_TRANSITION"
    subject = "status"

    def __init__(self, current: Enum, target: Enum) -> None:
        self.current = current
        self.target = target
        self.message = f"Invalid {self.subject} transition from {current.value} to {target.value}."
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "current": self.current.value,
            "target": self.target.value,
        }


class InvalidOrderTransition(InvalidTransition):
    code = "INVALID_ORDER_TRANSITION"
    subject = "order status"


class InvalidPaymentTransition(InvalidTransition):
    code = "INVALID_PAYMENT_TRANSITION"
    subject = "payment status"


class InvalidLeadTransition(InvalidTransition):
    code = "INVALID_LEAD_TRANSITION"
    subject = "lead status"


class OrderNotEditable(Exception):
    status_code = 409
    code = "ORDER_NOT_EDITABLE"

    def __init__(self, status: Enum, action: str) -> None:
        self.status = status
        self.message = f"Cannot {action} for order in terminal state: {status.value}"
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "current": self.status.value}


class NotFound(LookupError):
    """A workspace-scoped row does not exist (or belongs to another workspace)."""

    def __init__(self, entity: str, entity_id: int) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class WorkspaceNotFound(NotFound):
    def __init__(self, workspace_id: int) -> None:
        super().__init__("Workspace", workspace_id)
        self.workspace_id = workspace_id


class PermissionDenied(Exception):
    status_code = 403
    code = "FORBIDDEN"

    def __init__(self, permission: Permission, message: str | None = None) -> None:
        self.permission = permission
        self.message = message or "You don't have permission to perform this action."
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "required_permission": self.permission.value}

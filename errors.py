"""
Error taxonomy for the billing core.

Every failure a service can report to its caller is a BillingError subclass.
The HTTP layer maps `status_code` to the response; services never build
HTTPException themselves.
"""


class BillingError(Exception):
     """Base class for errors surfaced to callers of the billing services."""

     status_code = 400

     def __init__(self, detail: str):
          super().__init__(detail)
          self.detail = detail


class ValidationError(BillingError):
     """Missing or invalid input. Raised before any write happens."""

     status_code = 422


class PermissionDeniedError(BillingError):
     """The actor can see the record but may not act on it."""

     status_code = 403


class NotFoundError(BillingError):
     """Record does not exist or lies outside the actor's visible scope."""

     status_code = 404


class StateConflictError(BillingError):
     """Transition attempted from a source state that does not allow it."""

     status_code = 409


class CollisionExhaustedError(BillingError):
     """The sequence allocator ran out of attempts for a unique number."""

     status_code = 503


class IdentifierCollision(Exception):
     """
     Raised by a store when a generated number violates its unique constraint.

     Internal signal for the allocator's retry loop; never reaches callers.
     """

     def __init__(self, identifier: str):
          super().__init__(f"Identifier already taken: {identifier}")
          self.identifier = identifier


class SideEffectWarning(UserWarning):
     """Category for best-effort downstream actions that failed."""


class GatewayError(BillingError):
     """The payment gateway could not be reached or rejected the request."""

     status_code = 502

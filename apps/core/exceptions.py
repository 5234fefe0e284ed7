# core/exceptions.py

"""
Error taxonomy for the loan and penalty engine.

- ValidationError: malformed or out-of-range input, raised before any write
- PreconditionError: the request is well-formed but the current state forbids it
- ConflictError: a duplicate guarantor/vote row was rejected by a unique constraint
- PersistenceError: the database failed; the surrounding transaction rolled back
- NotFoundError: a referenced record does not exist

Every error carries a user-facing message and a stable machine code so that
presentation layers can map them without parsing text.
"""


class SaccoError(Exception):
    """Base class for all engine errors"""

    default_code = 'error'

    def __init__(self, message, code=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def __str__(self):
        return self.message


# =============================================================================
# INPUT ERRORS
# =============================================================================

class ValidationError(SaccoError):
    """Input rejected before any state change"""

    default_code = 'invalid'

    def __init__(self, message, code=None, errors=None):
        super().__init__(message, code)
        self.errors = errors or {}

    @classmethod
    def from_form(cls, form):
        """Build from a bound Django form that failed is_valid()"""
        errors = {field: [str(e) for e in errs] for field, errs in form.errors.items()}
        first_field, first_errors = next(iter(errors.items()), ('__all__', ['Invalid input']))
        message = first_errors[0] if first_field == '__all__' else f"{first_field}: {first_errors[0]}"
        return cls(message, errors=errors)


class NotFoundError(SaccoError):
    default_code = 'not_found'


# =============================================================================
# PRECONDITION ERRORS
# =============================================================================

class PreconditionError(SaccoError):
    """The current state of the loan/member does not allow the operation"""

    default_code = 'precondition_failed'


class InvalidStateError(PreconditionError):
    default_code = 'invalid_state'

    def __init__(self, message, current_status=None, target_status=None):
        super().__init__(message)
        self.current_status = current_status
        self.target_status = target_status


class InsufficientSavingsError(PreconditionError):
    default_code = 'limit_exceeded'

    def __init__(self, message, limit=None, multiplier=None):
        super().__init__(message)
        self.limit = limit
        self.multiplier = multiplier


class InsufficientGuarantorsError(PreconditionError):
    default_code = 'insufficient_guarantors'

    def __init__(self, message, required=None, accepted=None):
        super().__init__(message)
        self.required = required
        self.accepted = accepted


class ActiveApplicationExistsError(PreconditionError):
    default_code = 'active_application_exists'


class FeePaymentNotFoundError(PreconditionError):
    default_code = 'fee_not_paid'


class NotPermittedError(PreconditionError):
    """The acting member may not perform this operation on this record"""

    default_code = 'not_permitted'


# =============================================================================
# CONFLICT & PERSISTENCE ERRORS
# =============================================================================

class ConflictError(SaccoError):
    default_code = 'already_exists'


class DuplicateGuarantorError(ConflictError):
    pass


class DuplicateVoteError(ConflictError):
    pass


class DuplicateReferenceError(ConflictError):
    pass


class PersistenceError(SaccoError):
    default_code = 'persistence_failed'

# payroll_api/common/errors.py
from sqlalchemy.exc import IntegrityError, OperationalError, DBAPIError
from werkzeug.exceptions import HTTPException

from payroll_api.common.http import fail


class APIError(Exception):
    """Base for every failure the payroll core reports to callers.

    `code` is the stable machine-readable error code, `kind` the taxonomy
    bucket it belongs to (NotFound, Conflict, InvalidInput,
    BusinessRuleViolation, Unavailable).
    """
    kind = "Error"
    default_code = "ERROR"
    default_status = 400

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.code = code or self.default_code
        self.message = message
        self.status_code = status_code or self.default_status
        self.payload = payload


# ---------- taxonomy ----------

class NotFoundError(APIError):
    kind = "NotFound"
    default_code = "NOT_FOUND"
    default_status = 404


class ConflictError(APIError):
    kind = "Conflict"
    default_code = "CONFLICT"
    default_status = 409


class InvalidInputError(APIError):
    kind = "InvalidInput"
    default_code = "INVALID_INPUT"
    default_status = 422


class BusinessRuleViolation(APIError):
    kind = "BusinessRuleViolation"
    default_code = "BUSINESS_RULE_VIOLATION"
    default_status = 422


class Unavailable(APIError):
    kind = "Unavailable"
    default_code = "UNAVAILABLE"
    default_status = 503


# ---------- not found ----------

class ResourceNotFound(NotFoundError):
    def __init__(self, resource: str, field: str, value):
        super().__init__(f"{resource} not found with {field}: {value}",
                         payload={"resource": resource, "field": field, "value": value})


class PayrollNotFound(ResourceNotFound):
    default_code = "PAYROLL_NOT_FOUND"

    def __init__(self, payroll_id):
        super().__init__("Payroll", "id", payroll_id)


class PaySlipNotFound(ResourceNotFound):
    default_code = "PAYSLIP_NOT_FOUND"


# ---------- conflicts ----------

class AlreadyProcessed(ConflictError):
    default_code = "ALREADY_PROCESSED"


class AlreadyIssued(ConflictError):
    default_code = "ALREADY_ISSUED"


class DuplicateEntry(ConflictError):
    default_code = "DUPLICATE_ENTRY"


# ---------- invalid input ----------

class InvalidHours(InvalidInputError):
    default_code = "INVALID_HOURS"


class InvalidDateRange(InvalidInputError):
    default_code = "INVALID_DATE_RANGE"


class InvalidRequest(InvalidInputError):
    default_code = "INVALID_REQUEST"


# ---------- business rules ----------

class EmployeeNotEligible(BusinessRuleViolation):
    default_code = "EMPLOYEE_NOT_ELIGIBLE"


class NoApprovedHours(BusinessRuleViolation):
    default_code = "NO_APPROVED_HOURS"


class DeductionsExceedGross(BusinessRuleViolation):
    default_code = "DEDUCTIONS_EXCEED_GROSS"


class EntryLocked(BusinessRuleViolation):
    default_code = "ENTRY_LOCKED"


class InvalidStatusTransition(BusinessRuleViolation):
    default_code = "INVALID_STATUS_TRANSITION"


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        return fail(e.message, status=e.status_code, code=e.code, kind=e.kind, detail=e.payload)

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR", kind="Conflict")

    @app.errorhandler(OperationalError)
    def _db_down(e: OperationalError):
        app.logger.exception(e)
        return fail("Storage unavailable", status=503, code="UNAVAILABLE", kind="Unavailable")

    @app.errorhandler(DBAPIError)
    def _db_error(e: DBAPIError):
        app.logger.exception(e)
        return fail("Storage unavailable", status=503, code="UNAVAILABLE", kind="Unavailable")

    @app.errorhandler(Exception)
    def _500(e: Exception):
        app.logger.exception(e)
        return fail("Internal server error", status=500)

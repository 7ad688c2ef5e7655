from fastapi import HTTPException


class RideCoreException(Exception):
    status_code = 400
    code = "ride_core_error"
    message = "Ride core error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class RideAlreadyActiveException(RideCoreException):
    status_code = 409
    code = "ride_already_active"
    message = "Rider already has a ride in progress"


class BikeNotFoundException(RideCoreException):
    status_code = 404
    code = "bike_not_found"
    message = "Bike not found"


class BikeUnavailableException(RideCoreException):
    status_code = 409
    code = "bike_unavailable"
    message = "Bike is not available"


class InsufficientBalanceException(RideCoreException):
    status_code = 402
    code = "insufficient_balance"
    message = "Insufficient wallet balance"


class RideNotFoundException(RideCoreException):
    status_code = 404
    code = "ride_not_found"
    message = "Ride not found"


class RideNotActiveException(RideCoreException):
    status_code = 409
    code = "ride_not_active"
    message = "Ride is not in progress"


class InvalidTimeRangeException(RideCoreException):
    status_code = 400
    code = "invalid_time_range"
    message = "End time precedes start time"


class NoPricingConfigException(RideCoreException):
    status_code = 404
    code = "no_pricing_config"
    message = "No pricing configuration found"


class InvalidAmountException(RideCoreException):
    status_code = 400
    code = "invalid_amount"
    message = "Amount must be positive"


class PromotionNotFoundException(RideCoreException):
    status_code = 404
    code = "promotion_not_found"
    message = "Promotion not found"


class PromotionExhaustedException(RideCoreException):
    status_code = 409
    code = "promotion_exhausted"
    message = "Promotion usage limit reached"


class PromotionNotActiveException(RideCoreException):
    status_code = 409
    code = "promotion_not_active"
    message = "Promotion is inactive or outside its validity window"


class TransactionFailedException(RideCoreException):
    status_code = 500
    code = "transaction_failed"
    message = "Operation failed and was rolled back"


def http_exception_from(exc: RideCoreException) -> HTTPException:
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message},
    )

class RentalFlowError(Exception):
    """Базовая ошибка передачи аренды."""


# показывается пользователю как есть, автоматически не повторяется
class ValidationRejection(RentalFlowError):
    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class RentalNotFound(ValidationRejection):
    def __init__(self, rental_id: int):
        super().__init__("rental_not_found", f"rental {rental_id} not found")
        self.rental_id = rental_id


class ReviewRejected(ValidationRejection):
    pass


# отзыв уже есть: вызывающий код считает запись успешной
class DuplicateReview(RentalFlowError):
    def __init__(self, existing):
        super().__init__("review already recorded for this rental")
        self.existing = existing


class StatusConflict(RentalFlowError):
    def __init__(self, rental_id: int, attempts: int):
        super().__init__(f"rental {rental_id}: status write lost {attempts} times in a row")
        self.rental_id = rental_id
        self.attempts = attempts

"""Typed failures raised by the lifecycle services.

Every error carries the HTTP status it maps to and a message that is safe to
show to the user. Routers never build error responses by hand; the handlers
registered in ``postlink.main`` translate these classes.
"""


class PostLinkError(Exception):
    """Base class for all domain errors."""

    status_code = 400
    default_message = "Ошибка обработки запроса"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ── Business rules ──────────────────────────────


class BusinessRuleError(PostLinkError):
    status_code = 400


class QuotaExceededError(BusinessRuleError):
    default_message = "Удалите либо завершите одну из активных заявок, чтобы создать новую."


class DuplicateRouteError(BusinessRuleError):
    default_message = (
        "У вас уже есть активная заявка для этого маршрута и даты. "
        "Удалите существующую заявку, чтобы создать новую."
    )


class InvalidDateRangeError(BusinessRuleError):
    default_message = "Дата начала не может быть позже даты окончания"


class InvalidResponseIdError(BusinessRuleError):
    default_message = "Неверный идентификатор отклика"


class OwnRequestError(BusinessRuleError):
    default_message = "Нельзя откликнуться на собственную заявку"


class ResponseAlreadyExistsError(BusinessRuleError):
    default_message = "Вы уже откликнулись на эту заявку"


class ResponseAlreadyProcessedError(BusinessRuleError):
    default_message = "Отклик уже обработан"


class RoleMismatchError(BusinessRuleError):
    default_message = "У вас нет прав на это действие с откликом"


class RequestNotDeletableError(BusinessRuleError):
    default_message = "Нельзя удалить сопоставленную или завершённую заявку"


class RequestNotClosableError(BusinessRuleError):
    default_message = "Закрыть можно только сопоставленную заявку"


class RequestNotAcceptingResponsesError(BusinessRuleError):
    default_message = "Заявка больше не принимает отклики"


class InsufficientBalanceError(BusinessRuleError):
    status_code = 403
    default_message = "Недостаточно связей на балансе"


# ── Not found ───────────────────────────────────


class NotFoundError(PostLinkError):
    status_code = 404
    default_message = "Не найдено"


class RequestNotFoundError(NotFoundError):
    default_message = "Заявка не найдена"


class ResponseNotFoundError(NotFoundError):
    default_message = "Отклик не найден"


# ── Concurrency / infrastructure ────────────────


class ConflictError(PostLinkError):
    status_code = 409
    default_message = "Данные изменились, обновите страницу и попробуйте снова"


class AlreadyMatchedError(ConflictError):
    default_message = "Эта заявка уже сопоставлена с другим пользователем"


class StoreError(PostLinkError):
    status_code = 503
    default_message = "Сервис временно недоступен, попробуйте позже"

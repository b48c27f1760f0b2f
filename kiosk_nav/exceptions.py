class AppException(Exception):
    """
    Базовый класс для всех исключений приложения.
    """
    pass


class NotFoundError(AppException):
    """
    Ресурс не найден (например, при поиске в локальной базе).
    """
    pass


class ServiceError(AppException):
    """
    Ошибка на уровне бизнес-логики (сервисов).
    """
    pass


class RemoteUnavailableError(ServiceError):
    """
    Удалённый сервер не отвечает на проверку доступности.
    """
    pass


class SyncInProgressError(ServiceError):
    """
    Синхронизация уже выполняется.
    """
    pass

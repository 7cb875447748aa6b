import time
from typing import Any, Dict, Optional


class MediaPipelineError(Exception):
    """
    Базовое исключение медиа-конвейера с расширенной диагностикой.

    Добавляет timestamp, context и performance metrics для debugging.
    Контекст попадает только в логи: для вызывающей стороны есть user_message.
    """

    retryable: bool = False

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 performance_data: Optional[Dict[str, float]] = None):
        super().__init__(message)
        self.message = message
        self.timestamp = time.time()
        self.context = context or {}
        self.performance_data = performance_data or {}

    def __str__(self) -> str:
        base_msg = self.message
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" [Context: {context_str}]"
        if self.performance_data:
            perf_str = ", ".join(f"{k}={v:.3f}s" for k, v in self.performance_data.items())
            base_msg += f" [Performance: {perf_str}]"
        return base_msg

    @property
    def user_message(self) -> str:
        """Сообщение для пользователя без путей и внутренних деталей."""
        return self.message


class ConfigError(MediaPipelineError):
    """
    Исключение для ошибок конфигурации с валидацией полей.
    """

    def __init__(self, message: str, field_name: Optional[str] = None,
                 field_value: Optional[Any] = None, **kwargs):
        context = kwargs.pop('context', {})
        if field_name:
            context['field'] = field_name
        if field_value is not None:
            context['value'] = str(field_value)[:100]  # Ограничиваем длину для безопасности
        super().__init__(message, context=context, **kwargs)


class InvalidReference(MediaPipelineError):
    """Некорректная ссылка, ID видео или пустой поисковый запрос."""

    def __init__(self, message: str, reference: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if reference is not None:
            context['reference'] = str(reference)[:100]
        super().__init__(message, context=context, **kwargs)


class FetchFailed(MediaPipelineError):
    """
    Исключение для сетевой загрузки (протокол, загрузчик, HTTP).

    retryable=False используется для окончательных ответов источника,
    например "Video unavailable": дальше по цепочке идти бессмысленно.
    """

    retryable = True

    def __init__(self, message: str, source: Optional[str] = None,
                 attempts: Optional[int] = None, retryable: Optional[bool] = None,
                 **kwargs):
        context = kwargs.pop('context', {})
        if source:
            context['source'] = source
        if attempts is not None:
            context['attempts'] = attempts
        super().__init__(message, context=context, **kwargs)
        if retryable is not None:
            self.retryable = retryable


class MethodNotSupported(FetchFailed):
    """Источник умеет только метаданные, а не сам медиапоток."""

    retryable = False


class UndersizedResult(MediaPipelineError):
    """Данные подозрительно малы: заглушка вместо реального медиа."""

    retryable = True

    def __init__(self, message: str, size_bytes: Optional[int] = None,
                 min_bytes: Optional[int] = None, **kwargs):
        context = kwargs.pop('context', {})
        if size_bytes is not None:
            context['size_bytes'] = size_bytes
        if min_bytes is not None:
            context['min_bytes'] = min_bytes
        super().__init__(message, context=context, **kwargs)


class DurationExceeded(MediaPipelineError):
    """Источник длиннее разрешённого, отклонён до скачивания."""

    def __init__(self, message: str, duration: Optional[float] = None,
                 max_duration: Optional[float] = None, **kwargs):
        context = kwargs.pop('context', {})
        if duration is not None:
            context['duration'] = duration
        if max_duration is not None:
            context['max_duration'] = max_duration
        super().__init__(message, context=context, **kwargs)


class SizeExceeded(MediaPipelineError):
    """Результат больше разрешённого лимита."""

    def __init__(self, message: str, size_bytes: Optional[int] = None,
                 max_bytes: Optional[int] = None, **kwargs):
        context = kwargs.pop('context', {})
        if size_bytes is not None:
            context['file_size_mb'] = round(size_bytes / (1024 * 1024), 2)
        if max_bytes is not None:
            context['max_size_mb'] = round(max_bytes / (1024 * 1024), 2)
        super().__init__(message, context=context, **kwargs)


class TranscodeFailed(MediaPipelineError):
    """
    Исключение для ffmpeg: процесс упал, завис или не создал файл.
    """

    retryable = True

    def __init__(self, message: str, returncode: Optional[int] = None,
                 stderr: Optional[str] = None, **kwargs):
        context = kwargs.pop('context', {})
        if returncode is not None:
            context['returncode'] = returncode
        if stderr:
            context['stderr'] = stderr[-300:]
        super().__init__(message, context=context, **kwargs)


class AllStrategiesExhausted(MediaPipelineError):
    """Все стратегии цепочки загрузки завершились неудачей."""

    def __init__(self, message: str, attempts: Optional[list] = None, **kwargs):
        context = kwargs.pop('context', {})
        if attempts:
            context['attempts'] = "; ".join(str(a) for a in attempts)
        super().__init__(message, context=context, **kwargs)
        self.attempts = list(attempts or [])


def create_performance_context(start_time: float, operation_name: str,
                               **additional_metrics) -> Dict[str, Any]:
    """
    Создает контекст производительности для исключений.

    Args:
        start_time: Время начала операции (time.time())
        operation_name: Имя операции
        **additional_metrics: Дополнительные метрики

    Returns:
        Словарь с контекстом и метриками производительности
    """
    duration = time.time() - start_time
    return {
        'context': {'operation': operation_name},
        'performance_data': {'duration': duration, **additional_metrics}
    }


__all__ = [
    "MediaPipelineError",
    "ConfigError",
    "InvalidReference",
    "FetchFailed",
    "MethodNotSupported",
    "UndersizedResult",
    "DurationExceeded",
    "SizeExceeded",
    "TranscodeFailed",
    "AllStrategiesExhausted",
    "create_performance_context",
]

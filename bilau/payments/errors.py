"""Erros do fluxo de pagamento (validação, conectividade, HTTP, payload)."""


class PaymentError(Exception):
    """Base de todos os erros do ciclo de pagamento."""


class ValidationError(PaymentError):
    """Dados da doação inválidos (rejeitados antes de qualquer chamada de rede)."""

    def __init__(self, errors: list[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class ConnectivityError(PaymentError):
    """Falha de rede ou timeout ao falar com o backend."""

    def __init__(self, message: str, *, timed_out: bool = False):
        super().__init__(message)
        self.timed_out = timed_out


class HttpStatusError(PaymentError):
    """Resposta HTTP fora da faixa 2xx."""

    def __init__(self, status_code: int, message: str | None = None):
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")


class BadRequestError(HttpStatusError):
    """400: backend rejeitou os dados."""


class UnauthorizedError(HttpStatusError):
    """401."""


class NotFoundError(HttpStatusError):
    """404."""


class RateLimitedError(HttpStatusError):
    """429."""


class ServerError(HttpStatusError):
    """5xx."""


class MalformedResponseError(PaymentError):
    """Payload do backend com formato inesperado."""


class LifecycleError(PaymentError):
    """Operação não permitida no estado atual do pagamento."""


_STATUS_ERRORS: dict[int, type[HttpStatusError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    404: NotFoundError,
    429: RateLimitedError,
}


def error_for_status(status_code: int, message: str | None = None) -> HttpStatusError:
    """Instancia a subclasse de HttpStatusError correspondente ao código."""
    if status_code >= 500:
        return ServerError(status_code, message)
    cls = _STATUS_ERRORS.get(status_code, HttpStatusError)
    return cls(status_code, message)


def user_message(error: Exception) -> str:
    """Mensagem amigável (para o usuário final) a partir de um erro do fluxo."""
    if isinstance(error, ValidationError):
        return "\n".join(error.errors) or "Dados inválidos. Verifique as informações."
    if isinstance(error, ConnectivityError):
        if error.timed_out:
            return "Conexão muito lenta. Verifique sua internet."
        return "Erro de conexão. Verifique sua internet."
    if isinstance(error, BadRequestError):
        return "Dados inválidos. Verifique as informações."
    if isinstance(error, UnauthorizedError):
        return "Acesso não autorizado."
    if isinstance(error, NotFoundError):
        return "Recurso não encontrado."
    if isinstance(error, RateLimitedError):
        return "Muitas tentativas. Tente novamente em alguns minutos."
    if isinstance(error, ServerError):
        return "Erro no servidor. Tente novamente mais tarde."
    if isinstance(error, MalformedResponseError):
        return "Resposta inesperada do servidor. Tente novamente."
    if isinstance(error, LifecycleError):
        return str(error)
    return "Erro desconhecido. Tente novamente."

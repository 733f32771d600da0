class S4Error(Exception):
    pass

class ConfigError(S4Error):
    pass

class ValidationError(S4Error):
    pass

class SigningError(S4Error):
    pass

class TransportError(S4Error):
    pass

class ProtocolError(S4Error):
    pass

class InitError(ProtocolError):
    pass

class RequestError(S4Error):
    def __init__(self, status, body="", diagnostic=""):
        self.status = status
        self.body = body
        self.diagnostic = diagnostic
        message = f"request failed with status {status}"
        if body:
            message += f": body='{body.strip()}'"
        if diagnostic:
            message += f" ({diagnostic})"
        super().__init__(message)

RequestFailed = RequestError

# errors.py


class StorefrontError(Exception):
    """Base for every error the storefront surfaces to a caller."""

    status_code = 400

    def __init__(self, message, errors=None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_dict(self):
        data = {"ok": False, "message": self.message}
        if self.errors:
            data["errors"] = self.errors
        return data


class ValidationError(StorefrontError):
    """Missing or malformed input, caught before any remote call."""


class BusinessRuleError(StorefrontError):
    """A rule rejected the request: duplicate account, ineligible promo, ..."""


class AuthenticationError(StorefrontError):
    status_code = 401


class RemoteError(StorefrontError):
    """The data store or file storage failed."""

    status_code = 500


def field_errors(exc):
    """Flatten a pydantic ValidationError into {field: message}."""
    errors = {}
    for err in exc.errors():
        field = ".".join(str(p) for p in err.get("loc", ())) or "__root__"
        errors.setdefault(field, err.get("msg", "invalid value"))
    return errors

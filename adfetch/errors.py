"""Error types raised by the gateway and the download pipeline."""


class AdFetchError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message

    def to_dict(self):
        return {'error': self.message}


class ValidationError(AdFetchError):
    """Missing or malformed input from the caller."""
    status_code = 400


class CredentialError(AdFetchError):
    """No usable access token; the client should prompt for one."""
    status_code = 400

    def __init__(self, message='Facebook access token not configured',
                 hint='Please provide a valid Facebook access token to continue.'):
        super().__init__(message)
        self.hint = hint

    def to_dict(self):
        return {'error': self.message, 'needToken': True, 'message': self.hint}


class UpstreamError(AdFetchError):
    """The Graph API answered with a non-2xx status or could not be reached."""

    def __init__(self, message, status=None, details=None):
        super().__init__(message)
        self.status = status
        self.details = details if details is not None else message

    def to_dict(self):
        return {
            'error': 'Failed to search ads',
            'details': self.details,
            'statusCode': self.status,
        }


class FetchError(AdFetchError):
    """A single asset download failed."""

    def __init__(self, url, reason):
        super().__init__(f'{url}: {reason}')
        self.url = url
        self.reason = str(reason)

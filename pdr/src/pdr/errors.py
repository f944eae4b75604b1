class PdrError(Exception):
    def __init__(self, message, pdr_name=None):
        super().__init__(message)
        self.pdr_name = pdr_name

    def __str__(self):
        message = super().__str__()
        if self.pdr_name:
            return '{0}: {1}'.format(self.pdr_name, message)
        return message


class ConfigurationError(PdrError):
    pass


class UnsupportedProtocolError(ConfigurationError):
    pass


class ProviderConnectionError(PdrError):
    pass


class StructuralParseError(PdrError):
    pass


class GroupParseError(PdrError):
    pass


class StorageError(PdrError):
    pass

class VcStoreError(Exception):
    pass


class NotFoundError(VcStoreError):
    pass


class ValidationError(VcStoreError):
    pass


class NotSupportedError(VcStoreError):
    pass


class UnsupportedQueryType(VcStoreError):
    def __init__(self, query_type):
        super().__init__(f'Unsupported query type: "{query_type}"')
        self.query_type = query_type


class InvalidArgument(VcStoreError):
    pass


class DocumentNotFound(VcStoreError):
    """Raised by a backend when the document to act on no longer exists."""

"""
Exceptions raised by the Medication Viewer
"""


class ViewerError(Exception):
    """Base class for all viewer errors"""


class AuthenticationError(ViewerError):
    """The document store session could not be established"""


class FetchError(ViewerError):
    """A page, bulk or point fetch against the document store failed"""


class ResolverError(ViewerError):
    """The medication resolver API could not be reached or returned an error"""

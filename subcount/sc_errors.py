"""
Error taxonomy.

- AuthenticationError: the code exchange with the identity provider failed.
  Only the initiating request sees it.
- CredentialExpiredError: a fetch (or token refresh) was rejected because the
  stored credential is no longer valid. Demotes the server to unauthenticated.
- TransientFetchError: anything else that went wrong while fetching. The next
  scheduled or requested poll simply tries again.
"""


class SubcountError(Exception):
    """Base class for all errors raised by the subcount package."""


class AuthenticationError(SubcountError):
    pass


class FetchError(SubcountError):
    """A metric fetch failed."""


class CredentialExpiredError(FetchError):
    pass


class TransientFetchError(FetchError):
    pass

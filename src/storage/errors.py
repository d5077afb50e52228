"""Exceptions raised by the claim store."""


class ClaimStoreError(Exception):
    """Base class for claim store failures."""


class StorageError(ClaimStoreError):
    """The backing medium could not be read or written."""


class DuplicateClaimError(ClaimStoreError):
    """An explicitly supplied claim id is already in use."""

    def __init__(self, claim_id: str):
        super().__init__(f"Claim {claim_id} already exists")
        self.claim_id = claim_id

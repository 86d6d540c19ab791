"""Exception types shared across the revision engine.

Only two failure kinds are modelled as exceptions:

- ``BackendUnavailable`` -- a storage round-trip failed (connect, prepare,
  execute).  Public operations catch it, log it and fail closed.
- ``MergePrimitiveFailure`` -- the three-way merge primitive itself
  errored.  ``FieldMerger`` turns it into a failed merge result.

Missing rows are reported through return values (``None`` / ``False``),
not exceptions.
"""


class BackendUnavailable(RuntimeError):
    """A storage backend call failed."""


class MergePrimitiveFailure(RuntimeError):
    """The three-way text merge primitive raised instead of merging."""

"""
Exclusive primary flag for owner-partitioned records.

- At most one record per owner (per entity type) has is_primary set
- Promote/demote/create/delete run as one transaction over the owner's partition
- Ownership, not-found and conflicts are returned as FlagResult errors, not raised
"""

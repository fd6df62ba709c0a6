"""Business logic layer for drive app.

One module per component:
- quota_operations: usage reconciliation and quota checks
- valet_keys: presigned upload/download URLs
- folder_operations: folder hierarchy and denormalized paths
- file_operations: two-phase upload, file CRUD, search, bulk operations
- public_links: anonymous sharing tokens

Every operation takes the acting user explicitly, nothing is read from
request state. Models stay in the data layer, storage access goes
through infrastructure.
"""

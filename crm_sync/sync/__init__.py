"""
Warehouse-to-CRM sync.

- models: warehouse rows, credentials, reports
- properties: chat metrics -> CRM contact properties
- pipeline: per-CRM sync runs (import from `crm_sync.sync.pipeline`)
"""

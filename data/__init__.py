# Static reference data (signature tables)

"""Services built on the attribute and backup storage layers."""

"""Department storage data source adapters used by the quota guard."""

"""OKX lead-trader watcher: collection, swing alerts and series queries."""

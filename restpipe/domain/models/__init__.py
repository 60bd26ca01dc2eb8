"""Domain models: credentials, HTTP request/response values and rate budgets."""

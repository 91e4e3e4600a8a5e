"""HTTP API for the payroll run engine."""

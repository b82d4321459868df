"""Pure polars transforms: derivations, scoring and QA checks."""

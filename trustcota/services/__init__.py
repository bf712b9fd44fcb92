"""Domain services: numbering, lifecycle transitions and best-effort side effects."""

"""
Rankboard infrastructure core.

- config: environment settings and YAML tunables
- logging: structured async-safe logging
- database: engine, sessions, retry policy
- event: in-process event bus
- validation: input validators
- exceptions: infrastructure exception hierarchy
"""

# Configuration package: env-driven settings and declarative document validation.

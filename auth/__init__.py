"""auth/ -- Authentication package for StepAuth.

Plays the role of the authentication library: models, persistence, tokens,
the AuthService facade, and the FastAPI session dependency.

Layer rule: auth/ imports only core/, stdlib and third-party libraries.
It does NOT import from api/ or events/. api/ imports from auth/, not the
other way around.
"""

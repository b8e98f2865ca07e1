"""Server-rendered portal screens.

Kept deliberately small:
- rendered by the same FastAPI process as the JSON routes
- no runtime Node dependency
- plain HTML forms + redirects

Auth: the signed-in session id travels in an HttpOnly cookie.
"""

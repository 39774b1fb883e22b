# Routes package init
"""
Cadastro API — Routes Package
===============================

Route Inventory:
    - health.py:    GET  /                 (liveness)
                    GET  /status           (database round trip)
    - usuarios.py:  GET  /users            (list)
                    POST /users            (register)
                    PUT  /users/{id}       (full replacement)
                    PATCH /users/{id}      (partial update)
    - auth.py:      POST /login            (authenticate)

Routes only translate HTTP to service calls. Validation, hashing and error
mapping live in services/usuario_service.py.
"""

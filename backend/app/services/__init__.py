# Services package init
"""
Cadastro API — Services Layer
===============================

Service Inventory:
    - PasswordHasher: bcrypt hashing and verification (off the event loop)
    - UsuarioService: registration, login, listing, update, database status

Both are built once by create_app() and stored on app.state.
"""

ROLE_USER = "user"
ROLE_ADMIN = "admin"

ROLE = (
    (ROLE_USER, "User"),
    (ROLE_ADMIN, "Admin"),
)

PROVIDER = (
    ("email", "Email"),
    ("google", "Google"),
    ("github", "GitHub"),
    ("linkedin", "LinkedIn"),
)

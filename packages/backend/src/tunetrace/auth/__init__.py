"""Authentication.

Learn: Users register/login with email + password and receive a JWT
access token. That opaque bearer credential is the only identity the
rest of the system sees: REST routes read it from the Authorization
header, the live channel receives it in the AUTHENTICATE message.
"""

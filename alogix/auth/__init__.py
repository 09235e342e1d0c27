# Authentication package.
#
#   resolver   : SessionResolver, request headers -> Identity | None
#   sessions   : issue / revoke sessions, session cookie helpers
#   users      : user lookup and creation shared by the sign-in flows
#   magic_link : passwordless email sign-in
#   social     : GitHub / Google OAuth sign-in
#   utils      : token generation, hashing, expiry and redirect checks
#
# Configuration arrives as the frozen ``AuthConfig`` built in
# ``alogix.config``; nothing in this package mutates it.

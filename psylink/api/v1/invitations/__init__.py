from psylink.api.v1.invitations.routes import router

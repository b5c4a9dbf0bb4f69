from psylink.api.v1.associations.routes import router

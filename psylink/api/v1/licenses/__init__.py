from psylink.api.v1.licenses.routes import router

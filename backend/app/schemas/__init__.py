# Pydantic request schemas

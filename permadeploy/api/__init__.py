"""HTTP clients for the upload/payment services and the name registry."""

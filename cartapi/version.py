API_V1 = "/v1"
API_V2 = "/v2"
API_VERSION = "2.0.0"

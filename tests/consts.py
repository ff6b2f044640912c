TEST_TARGETS = {
    "dev": "10.0.0.10",
    "staging": "10.0.0.20",
    "main": "10.0.0.30",
}
TEST_REGISTRY = "registry.example.com"
TEST_IMAGE_NAME = "app-image"
TEST_CONTAINER_NAME = "app-image"
TEST_ACCOUNT_ID = "123456789012"
TEST_SENDER = "ci@example.com"
TEST_RECIPIENT = "team@example.com"

pytest_plugins = ["tests.fixtures.fixtures"]

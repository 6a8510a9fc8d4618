pytest_plugins = [
    "tests.fixtures.aws_fixtures",
    "tests.fixtures.stack_fixtures",
]

from unittest.mock import call, patch

from thakii_ops.aws.image import ecr_login, prepare_image
from tests.consts import TEST_ACCOUNT_ID


def test_ecr_login_pipes_password(mocked_aws, ops_settings):
    with patch("thakii_ops.aws.image.run_command", return_value=("", "")) as run:
        registry = ecr_login(ops_settings)

    args, kwargs = run.call_args
    assert args[0][:2] == ["docker", "login"]
    assert args[0][-1] == registry
    assert "--password-stdin" in args[0]
    assert kwargs["input_text"]


def test_prepare_image_builds_and_pushes(ops_settings):
    ops_settings = ops_settings.model_copy(update={"aws_account_id": TEST_ACCOUNT_ID})
    with patch("thakii_ops.aws.image.run_streaming") as streaming, \
            patch("thakii_ops.aws.image.run_command", return_value=("", "")) as run:
        target = prepare_image(ops_settings)

    repo = ops_settings.ecr_repo_name
    assert target.endswith(f"/{repo}:latest")
    streaming.assert_has_calls([
        call(["docker", "build", "-t", repo, "."]),
        call(["docker", "push", target]),
    ])
    run.assert_called_once_with(["docker", "tag", f"{repo}:latest", target])


def test_prepare_image_falls_back_to_minimal_build(ops_settings):
    ops_settings = ops_settings.model_copy(update={"aws_account_id": TEST_ACCOUNT_ID})
    with patch("thakii_ops.aws.image.run_streaming") as streaming, \
            patch("thakii_ops.aws.image.run_command", return_value=("", "")):
        prepare_image(ops_settings, reuse_existing=True)

    build_cmd = streaming.call_args_list[0].args[0]
    assert build_cmd[:4] == ["docker", "build", "-t", f"{ops_settings.ecr_repo_name}-minimal"]
    assert "Dockerfile.minimal" in build_cmd


def test_prepare_image_reuses_existing(ops_settings):
    ops_settings = ops_settings.model_copy(update={"aws_account_id": TEST_ACCOUNT_ID})
    with patch("thakii_ops.aws.image.run_streaming") as streaming, \
            patch("thakii_ops.aws.image.run_command", return_value=("abc123\n", "")):
        prepare_image(ops_settings, reuse_existing=True)

    # Only the push streams; nothing was built
    assert len(streaming.call_args_list) == 1
    assert streaming.call_args_list[0].args[0][:2] == ["docker", "push"]


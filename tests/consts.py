TEST_REGION = "us-east-2"
TEST_ACCOUNT_ID = "123456789012"
TEST_CLUSTER_NAME = "Thakii-test"
TEST_SERVICE_NAME = "thakii-lecture2pdf-s3-service"
TEST_TASK_FAMILY = "thakii-lecture2pdf-task"
TEST_IMAGE = "123456789012.dkr.ecr.us-east-2.amazonaws.com/thakii-lecture2pdf-service:latest"

TEST_VPN_USERNAME = "p1234567"
TEST_VPN_PASSWORD = "s3cretPassw0rd"

"""Shared fixtures for the Ham or Spam tests."""

import os

# Settings singletons are created at import time
os.environ.setdefault("MLFLOW_TRACKING_URI", "file:./mlruns")
os.environ.setdefault("ARGO_WORKFLOW_UID", "DEV")
os.environ.setdefault("DOCKER_IMAGE_TAG", "DEV")

import pytest  # noqa: E402

SMS_LINES = [
    "ham\tGo until jurong point, crazy.. Available only in bugis n great world la e buffet...",
    "ham\tOk lar... Joking wif u oni...",
    "spam\tFree entry in 2 a wkly comp to win FA Cup final tkts 21st May 2005.",
    "ham\tU dun say so early hor... U c already then say...",
    "spam\tWINNER!! As a valued network customer you have been selected to receive a prize reward!",
    "ham\tNah I don't think he goes to usf, he lives around here though",
    "spam\tFreeMsg Hey there darling it's been 3 week's now and no word back!",
    "ham\tEven my brother is not like to speak with me.",
    "spam\tHad your mobile 11 months or more? U R entitled to Update to the latest colour mobiles free!",
    "ham\tI'm gonna be home soon and i don't want to talk about this stuff anymore tonight",
]


@pytest.fixture
def sms_lines():
    return list(SMS_LINES)


@pytest.fixture
def sms_file(tmp_path, sms_lines):
    path = tmp_path / "smsData.txt"
    path.write_text("\n".join(sms_lines) + "\n", encoding="ISO-8859-1")
    return path

[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtpkit"
version = "0.1.0"
description = "RTP/RTCP stream helpers: NACK generation and response, sender/receiver reports and transport-wide congestion control feedback"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtp", "rtcp", "nack", "twcc", "webrtc", "congestion-control"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Internet Phone",
    "Topic :: Multimedia :: Video",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rtpkit"]

[tool.pytest.ini_options]
addopts = "-ra"

from setuptools import find_packages, setup

package_name = "slam_bridge"

setup(
    name=package_name,
    version="0.1.0",
    packages=find_packages(exclude=["test"]),
    data_files=[
        ("share/ament_index/resource_index/packages", ["resource/" + package_name]),
        ("share/" + package_name, ["package.xml"]),
        (
            "share/" + package_name + "/launch",
            [
                "launch/slam_bridge.launch.py",
            ],
        ),
        (
            "share/" + package_name + "/config",
            [
                "config/slam_bridge.yaml",
            ],
        ),
    ],
    install_requires=["setuptools", "numpy", "scipy", "pydantic>=2", "pyyaml", "rerun-sdk"],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    maintainer="Will Haber",
    maintainer_email="whab13@mit.edu",
    description="Trajectory lifecycle and query bridge between a SLAM engine and ROS 2",
    license="Apache-2.0",
    tests_require=["pytest"],
    entry_points={
        "console_scripts": [
            "slam_bridge_node = slam_bridge.node.bridge_node:main",
        ],
    },
)

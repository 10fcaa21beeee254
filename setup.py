from setuptools import find_packages, setup
import os
from glob import glob

package_name = 'icp_object_tracker'

setup(
    name=package_name,
    version='0.1.0',
    packages=find_packages(exclude=['test']),
    data_files=[
        ('share/ament_index/resource_index/packages',
            ['resource/' + package_name]),
        ('share/' + package_name, ['package.xml']),
        # Include launch files
        (os.path.join('share', package_name, 'launch'), glob('launch/*.py')),
        # Include config files
        (os.path.join('share', package_name, 'config'), glob('config/*.yaml')),
    ],
    install_requires=[
        'setuptools',
        'numpy',
        'scipy',
        'open3d',
        'PyYAML',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=True,
    maintainer='gejan',
    maintainer_email='gejan@student.ethz.ch',
    description='ICP based 6-DoF tracking of a known object in a stream of point clouds',
    license='MIT',
    tests_require=['pytest'],
    entry_points={
        'console_scripts': [
            'icp_tracking_node = icp_object_tracker.icp_tracking_node:main',
            'icp_track_replay = icp_object_tracker.replay:main',
        ],
    },
)

from launch import LaunchDescription
from launch_ros.actions import Node
from launch_ros.parameter_descriptions import ParameterValue
from launch.substitutions import LaunchConfiguration
from launch.actions import DeclareLaunchArgument
import os
from ament_index_python.packages import get_package_share_directory


def generate_launch_description():
    # Get package share directory
    pkg_share = get_package_share_directory('icp_object_tracker')
    config_dir = os.path.join(pkg_share, 'config')

    # Launch arguments
    params_file = LaunchConfiguration('params_file')
    input_cloud = LaunchConfiguration('input_cloud')
    reference_model_path = LaunchConfiguration('reference_model_path')
    start_enabled = LaunchConfiguration('start_enabled')

    return LaunchDescription([
        # Declare launch arguments
        DeclareLaunchArgument(
            'params_file',
            default_value=os.path.join(config_dir, 'icp_tracking.yaml'),
            description='Path to the tracker parameter file'
        ),
        DeclareLaunchArgument(
            'input_cloud',
            default_value='/camera/depth/points',
            description='Point cloud topic of the depth sensor'
        ),
        DeclareLaunchArgument(
            'reference_model_path',
            default_value=os.path.join(pkg_share, 'models', 'target.pcd'),
            description='Point cloud file of the tracked object'
        ),
        DeclareLaunchArgument(
            'start_enabled',
            default_value='false',
            description='Process frames without waiting for the enable service'
        ),

        Node(
            package='icp_object_tracker',
            executable='icp_tracking_node',
            name='icp_tracking_node',
            parameters=[
                params_file,
                {'reference_model_path': reference_model_path},
                {'start_enabled': ParameterValue(start_enabled, value_type=bool)},
            ],
            remappings=[('input_cloud', input_cloud)],
            output='screen'
        ),
    ])

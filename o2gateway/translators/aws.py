"""
O2 Gateway — AWS Translator
============================
EC2 availability zones, Auto Scaling groups, instances and instance types
⇄ O2-IMS entities.

Native objects are the dict shapes returned by the EC2 and Auto Scaling
APIs (``aioboto3``), e.g. ``{"InstanceId": ..., "Placement": {...}}``.

Identifier scheme:
- availability zone pool: ``aws-az-<zone>``
- auto scaling group pool: ``aws-asg-<name>``
- instance: ``aws-instance-<id>``, global asset ``urn:aws:ec2:<region>:<id>``
- instance type: ``aws-instance-type-<type>``
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from o2gateway.models.ims import (
    Resource,
    ResourceClass,
    ResourceKind,
    ResourcePool,
    ResourceType,
)
from o2gateway.translators.common import prefixed, strip_prefix

NAMESPACE = "aws"
AZ_POOL_PREFIX = "aws-az-"
ASG_POOL_PREFIX = "aws-asg-"
INSTANCE_PREFIX = "aws-instance-"
INSTANCE_TYPE_PREFIX = "aws-instance-type-"
VENDOR = "Amazon Web Services"

# Instances in these states are listed; terminated ones are not.
LISTED_INSTANCE_STATES = ("running", "pending", "stopping", "stopped")


def az_pool_id(zone: str) -> str:
    return prefixed(AZ_POOL_PREFIX, zone)


def asg_pool_id(name: str) -> str:
    return prefixed(ASG_POOL_PREFIX, name)


def instance_resource_id(instance_id: str) -> str:
    return prefixed(INSTANCE_PREFIX, instance_id)


def instance_type_id(instance_type: str) -> str:
    return prefixed(INSTANCE_TYPE_PREFIX, instance_type)


def native_instance_id(resource_id: str) -> str:
    return strip_prefix(INSTANCE_PREFIX, resource_id)


def native_instance_type(resource_type_id: str) -> str:
    return strip_prefix(INSTANCE_TYPE_PREFIX, resource_type_id)


def tags_to_map(tags: Iterable[Mapping[str, Any]] | None) -> dict[str, str]:
    return {tag.get("Key", ""): tag.get("Value", "") for tag in tags or ()}


# ── Resource Pools ──────────────────────────────────────────────────────


def availability_zone_to_resource_pool(
    zone: Mapping[str, Any], ocloud_id: str
) -> ResourcePool:
    name = zone.get("ZoneName") or ""
    return ResourcePool(
        resource_pool_id=az_pool_id(name),
        name=name,
        description=f"AWS Availability Zone {name}",
        location=name,
        o_cloud_id=ocloud_id,
        extensions={
            "aws.zoneId": zone.get("ZoneId"),
            "aws.zoneType": zone.get("ZoneType"),
            "aws.region": zone.get("RegionName"),
            "aws.state": zone.get("State"),
        },
    )


def auto_scaling_group_to_resource_pool(
    group: Mapping[str, Any], ocloud_id: str
) -> ResourcePool:
    name = group.get("AutoScalingGroupName") or ""
    zones = list(group.get("AvailabilityZones") or [])
    launch_template = group.get("LaunchTemplate") or {}
    return ResourcePool(
        resource_pool_id=asg_pool_id(name),
        name=name,
        description=f"AWS Auto Scaling Group {name}",
        location=zones[0] if zones else "",
        o_cloud_id=ocloud_id,
        extensions={
            "aws.asgArn": group.get("AutoScalingGroupARN"),
            "aws.desiredCapacity": group.get("DesiredCapacity", 0),
            "aws.minSize": group.get("MinSize", 0),
            "aws.maxSize": group.get("MaxSize", 0),
            "aws.availabilityZones": zones,
            "aws.launchTemplate": launch_template.get("LaunchTemplateName", ""),
            "aws.healthCheckType": group.get("HealthCheckType"),
            "aws.status": group.get("Status"),
            "aws.createdTime": group.get("CreatedTime"),
            "aws.defaultCooldown": group.get("DefaultCooldown", 0),
            "aws.terminationPolicies": list(group.get("TerminationPolicies") or []),
            "aws.tags": tags_to_map(group.get("Tags")),
        },
    )


# ── Resources ───────────────────────────────────────────────────────────


def instance_to_resource(instance: Mapping[str, Any], region: str) -> Resource:
    instance_id = instance.get("InstanceId") or ""
    instance_type = instance.get("InstanceType") or ""
    zone = (instance.get("Placement") or {}).get("AvailabilityZone") or ""
    state = instance.get("State") or {}
    tags = tags_to_map(instance.get("Tags"))

    extensions: dict[str, Any] = {
        "aws.instanceId": instance_id,
        "aws.instanceType": instance_type,
        "aws.availabilityZone": zone,
        "aws.state": state.get("Name"),
        "aws.stateCode": state.get("Code", 0),
        "aws.imageId": instance.get("ImageId"),
        "aws.privateIp": instance.get("PrivateIpAddress"),
        "aws.publicIp": instance.get("PublicIpAddress"),
        "aws.privateDns": instance.get("PrivateDnsName"),
        "aws.publicDns": instance.get("PublicDnsName"),
        "aws.vpcId": instance.get("VpcId"),
        "aws.subnetId": instance.get("SubnetId"),
        "aws.architecture": instance.get("Architecture"),
        "aws.platform": instance.get("PlatformDetails"),
        "aws.launchTime": instance.get("LaunchTime"),
        "aws.tags": tags,
    }

    volumes = [
        {
            "deviceName": bdm.get("DeviceName"),
            "volumeId": bdm["Ebs"].get("VolumeId"),
            "status": bdm["Ebs"].get("Status"),
        }
        for bdm in instance.get("BlockDeviceMappings") or ()
        if bdm.get("Ebs")
    ]
    if volumes:
        extensions["aws.volumes"] = volumes

    interfaces = [
        {
            "interfaceId": eni.get("NetworkInterfaceId"),
            "subnetId": eni.get("SubnetId"),
            "privateIp": eni.get("PrivateIpAddress"),
            "macAddress": eni.get("MacAddress"),
            "status": eni.get("Status"),
        }
        for eni in instance.get("NetworkInterfaces") or ()
    ]
    if interfaces:
        extensions["aws.networkInterfaces"] = interfaces

    cpu = instance.get("CpuOptions")
    if cpu:
        extensions["aws.cpuCoreCount"] = cpu.get("CoreCount", 0)
        extensions["aws.cpuThreadsPerCore"] = cpu.get("ThreadsPerCore", 0)

    return Resource(
        resource_id=instance_resource_id(instance_id),
        resource_type_id=instance_type_id(instance_type),
        resource_pool_id=az_pool_id(zone),
        global_asset_id=f"urn:aws:ec2:{region}:{instance_id}",
        description=tags.get("Name") or instance_id,
        extensions=extensions,
    )


def resource_to_run_instances(resource: Resource, image_id: str) -> dict[str, Any]:
    """``RunInstances`` keyword arguments for a single instance."""
    params: dict[str, Any] = {
        "ImageId": image_id,
        "InstanceType": native_instance_type(resource.resource_type_id),
        "MinCount": 1,
        "MaxCount": 1,
    }
    ext = resource.extensions
    if ext.get("aws.subnetId"):
        params["SubnetId"] = ext["aws.subnetId"]
    if ext.get("aws.securityGroupIds"):
        params["SecurityGroupIds"] = list(ext["aws.securityGroupIds"])
    if ext.get("aws.keyName"):
        params["KeyName"] = ext["aws.keyName"]
    if resource.description:
        params["TagSpecifications"] = [
            {
                "ResourceType": "instance",
                "Tags": [{"Key": "Name", "Value": resource.description}],
            }
        ]
    return params


# ── Resource Types ──────────────────────────────────────────────────────


def instance_type_to_resource_type(info: Mapping[str, Any]) -> ResourceType:
    type_name = info.get("InstanceType") or ""
    family, _, size = type_name.partition(".")
    bare_metal = bool(info.get("BareMetal"))

    extensions: dict[str, Any] = {
        "aws.instanceType": type_name,
        "aws.instanceFamily": family if size else "",
        "aws.instanceSize": size,
        "aws.currentGeneration": bool(info.get("CurrentGeneration")),
        "aws.bareMetal": bare_metal,
        "aws.freeTier": bool(info.get("FreeTierEligible")),
        "aws.hypervisor": info.get("Hypervisor", ""),
    }

    vcpu = info.get("VCpuInfo")
    if vcpu:
        extensions["aws.vcpus"] = vcpu.get("DefaultVCpus", 0)
        extensions["aws.vcpuCores"] = vcpu.get("DefaultCores", 0)
        extensions["aws.vcpuThreadsPerCore"] = vcpu.get("DefaultThreadsPerCore", 0)

    memory = info.get("MemoryInfo")
    if memory:
        extensions["aws.memoryMiB"] = memory.get("SizeInMiB", 0)

    storage = info.get("InstanceStorageInfo")
    extensions["aws.instanceStorageSupported"] = bool(storage)
    if storage:
        extensions["aws.instanceStorageGiB"] = storage.get("TotalSizeInGB", 0)
        disks = storage.get("Disks") or []
        if disks:
            extensions["aws.instanceStorageType"] = disks[0].get("Type")

    network = info.get("NetworkInfo")
    if network:
        extensions["aws.networkPerformance"] = network.get("NetworkPerformance")
        extensions["aws.maxNetworkInterfaces"] = network.get("MaximumNetworkInterfaces", 0)
        extensions["aws.ipv4AddressesPerInterface"] = network.get(
            "Ipv4AddressesPerInterface", 0
        )
        extensions["aws.enaSupported"] = network.get("EnaSupport") in ("required", "supported")

    gpus = (info.get("GpuInfo") or {}).get("Gpus") or []
    if gpus:
        gpu = gpus[0]
        extensions["aws.gpuCount"] = gpu.get("Count", 0)
        extensions["aws.gpuManufacturer"] = gpu.get("Manufacturer")
        extensions["aws.gpuName"] = gpu.get("Name")
        extensions["aws.gpuMemoryMiB"] = (gpu.get("MemoryInfo") or {}).get("SizeInMiB", 0)

    processor = info.get("ProcessorInfo")
    if processor:
        extensions["aws.processorArchitectures"] = list(
            processor.get("SupportedArchitectures") or []
        )
        extensions["aws.processorClockSpeedGhz"] = processor.get(
            "SustainedClockSpeedInGhz", 0.0
        )

    if info.get("SupportedUsageClasses"):
        extensions["aws.supportedUsageClasses"] = list(info["SupportedUsageClasses"])

    if vcpu and memory:
        description = (
            f"AWS {type_name}: {vcpu.get('DefaultVCpus', 0)} vCPUs, "
            f"{memory.get('SizeInMiB', 0) // 1024} GiB RAM"
        )
    else:
        description = f"AWS EC2 Instance Type {type_name}"

    return ResourceType(
        resource_type_id=instance_type_id(type_name),
        name=type_name,
        description=description,
        vendor=VENDOR,
        model=type_name,
        version=family if size else "",
        resource_class=ResourceClass.COMPUTE,
        resource_kind=ResourceKind.PHYSICAL if bare_metal else ResourceKind.VIRTUAL,
        extensions=extensions,
    )

"""Configuration templates for bastion."""

CONFIG_TEMPLATE = """\
# bastion configuration
#
# Values under `defaults` apply to every cluster. Sections under `clusters`
# override them for one cluster. Command line flags override both.

vars:
  state_dir: ~/.bastion/state

defaults:
  region: us-east-1
  ssh_username: gardener
  identity_file: ~/.ssh/id_rsa
  # public_key_file: ~/.ssh/id_rsa.pub
  instance_type: t2.nano
  ssh_allowed_cidr: 0.0.0.0/0
  connect_grace_seconds: 45
  teardown_grace_seconds: 45
  readiness_max_attempts: 60
  readiness_interval_seconds: 2

clusters:
  # my-shoot:
  #   region: eu-west-1
  #   kubeconfig: ~/.kube/my-shoot.yaml
  #   terraform_state: ${state_dir}/my-shoot/terraform.tfstate
"""

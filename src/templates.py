"""Workspace file rendering.

Pure functions: the same configuration always renders byte-identical text.
"""

from models import MachineConfiguration

INFRA_FILENAME = 'main.tf'
VARIABLES_FILENAME = 'terraform.tfvars'
SCRIPT_FILENAME = 'setup.sh'

# Latest Ubuntu 22.04 image published by Canonical
IMAGE_OWNER = '099720109477'
IMAGE_NAME_PATTERN = 'ubuntu/images/hvm-ssd/ubuntu-jammy-22.04-amd64-server-*'
IMAGE_VIRTUALIZATION = 'hvm'

INGRESS_RULES = (
    ('SSH', 22),
    ('VS Code Server', 8080),
    ('Application Port', 3000),
)

BASE_PACKAGES = ('curl', 'wget', 'git', 'build-essential')

COMPLETION_MARKER = 'echo "Setup completed successfully!"'

APP_INSTALL_BLOCKS = {
    'vscode': '''
# Install VS Code Server
curl -fsSL https://code-server.dev/install.sh | sh
sudo systemctl enable --now code-server@ubuntu

# Configure code-server
mkdir -p ~/.config/code-server
cat > ~/.config/code-server/config.yaml << EOF
bind-addr: 0.0.0.0:8080
auth: password
password: changeme
cert: false
EOF

sudo systemctl restart code-server@ubuntu
''',
    'claude-code': '''
# Install Node.js (required for Claude Code)
curl -fsSL https://deb.nodesource.com/setup_lts.x | sudo -E bash -
sudo apt-get install -y nodejs

# Install Claude Code
sudo npm install -g @anthropic-ai/claude-code

# Create a startup script
cat > ~/start-claude-code.sh << 'EOF'
#!/bin/bash
claude-code
EOF
chmod +x ~/start-claude-code.sh
''',
}

NO_APPLICATION_BLOCK = '# No application to install'


def _hcl_string(value: str) -> str:
    """Quote a value as an HCL string literal."""
    escaped = value.replace('\\', '\\\\').replace('"', '\\"').replace('${', '$${')
    return f'"{escaped}"'


def _ingress_blocks() -> str:
    blocks = []
    for description, port in INGRESS_RULES:
        blocks.append(f'''  ingress {{
    description = "{description}"
    from_port   = {port}
    to_port     = {port}
    protocol    = "tcp"
    cidr_blocks = ["0.0.0.0/0"]
  }}
''')
    return '\n'.join(blocks)


def render_infra_declaration(config: MachineConfiguration, key_name: str, key_path: str) -> str:  # pylint: disable=unused-argument
    """Render the provider, key pair, security group, image lookup and instance.

    Args:
        config: Machine being deployed (region and size come from the variables file)
        key_name: Name of the imported key pair
        key_path: Private key path; the public key is read from ``{key_path}.pub``
    """
    public_key_path = _hcl_string(f'{key_path}.pub')
    return f'''terraform {{
  required_providers {{
    aws = {{
      source  = "hashicorp/aws"
      version = "~> 5.0"
    }}
  }}
}}

provider "aws" {{
  region = var.aws_region
}}

variable "aws_region" {{
  description = "AWS region"
  type        = string
}}

variable "instance_type" {{
  description = "EC2 instance type"
  type        = string
}}

variable "instance_name" {{
  description = "Name tag for the instance"
  type        = string
}}

variable "application" {{
  description = "Application to install"
  type        = string
}}

resource "aws_key_pair" "vm_key" {{
  key_name   = {_hcl_string(key_name)}
  public_key = file({public_key_path})
}}

resource "aws_security_group" "vm_sg" {{
  name        = "vm-sg-${{var.instance_name}}"
  description = "Security group for VM instance"

{_ingress_blocks()}
  egress {{
    from_port   = 0
    to_port     = 0
    protocol    = "-1"
    cidr_blocks = ["0.0.0.0/0"]
  }}

  tags = {{
    Name = "vm-sg-${{var.instance_name}}"
  }}
}}

data "aws_ami" "ubuntu" {{
  most_recent = true
  owners      = ["{IMAGE_OWNER}"]

  filter {{
    name   = "name"
    values = ["{IMAGE_NAME_PATTERN}"]
  }}

  filter {{
    name   = "virtualization-type"
    values = ["{IMAGE_VIRTUALIZATION}"]
  }}
}}

resource "aws_instance" "vm" {{
  ami                    = data.aws_ami.ubuntu.id
  instance_type          = var.instance_type
  key_name               = aws_key_pair.vm_key.key_name
  vpc_security_group_ids = [aws_security_group.vm_sg.id]

  root_block_device {{
    volume_size = 30
    volume_type = "gp3"
  }}

  tags = {{
    Name        = var.instance_name
    Application = var.application
  }}
}}

output "public_ip" {{
  value = aws_instance.vm.public_ip
}}

output "instance_id" {{
  value = aws_instance.vm.id
}}
'''


def render_variables(config: MachineConfiguration) -> str:
    """Render the variables file for the declared inputs."""
    return (
        f'aws_region    = {_hcl_string(config.region)}\n'
        f'instance_type = {_hcl_string(config.instance_size)}\n'
        f'instance_name = {_hcl_string(config.name)}\n'
        f'application   = {_hcl_string(config.application)}\n'
    )


def application_block(application: str) -> str:
    """Install block for an application; anything unknown installs nothing."""
    return APP_INSTALL_BLOCKS.get(application, NO_APPLICATION_BLOCK)


def render_setup_script(config: MachineConfiguration) -> str:
    """Render the bootstrap script run as root on the new host."""
    packages = ' '.join(BASE_PACKAGES)
    return f'''#!/bin/bash
set -e

# Update system
apt-get update
apt-get upgrade -y

# Install common tools
apt-get install -y {packages}

{application_block(config.application)}

# Setup complete
{COMPLETION_MARKER}
'''

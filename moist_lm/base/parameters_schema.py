# Copyright 2025 The moist_lm Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

R"""The protocol buffer schema of the simulation configuration.

The schema is registered in the default descriptor pool when this module is
imported, and the message classes are generated from the registered
descriptors. In the proto2 language it reads:

  package moist_lm;

  message GridParameters {
    optional int32 itot = 1 [default = 8];
    optional int32 jtot = 2 [default = 8];
    optional int32 ktot = 3 [default = 32];
    optional double xsize = 4 [default = 3200.0];
    optional double ysize = 5 [default = 3200.0];
    optional double zsize = 6 [default = 3200.0];
    // Heights of the interior full levels. A uniform grid is used if empty.
    repeated double z = 7;
    optional int32 spatial_order = 8 [default = 2];
    // Number of sub-domains along x.
    optional int32 npx = 9 [default = 1];
  }

  message ThermoParameters {
    optional double ps = 1;
    repeated string crosslist = 2;
    optional bool swupdatebasestate = 3 [default = false];
    repeated double thl_profile = 4;
    repeated double qt_profile = 5;
    optional int32 max_saturation_iterations = 6 [default = 100];
    optional double saturation_tolerance = 7 [default = 1e-5];
  }

  message ScalarViscosity {
    optional string name = 1;
    optional double value = 2;
  }

  message FieldsParameters {
    repeated ScalarViscosity svisc = 1;
  }

  message DiffusionParameters {
    optional string scheme = 1 [default = "smag2"];
    optional double tpr = 2 [default = 0.3333333333333333];
  }

  message StatsParameters {
    optional bool enabled = 1 [default = true];
    repeated string masks = 2;
  }

  message CrossParameters {
    repeated int32 jxz = 1;
    repeated int32 kxy = 2;
  }

  message MoistLMParameters {
    optional GridParameters grid = 1;
    optional ThermoParameters thermo = 2;
    optional FieldsParameters fields = 3;
    optional DiffusionParameters diffusion = 4;
    optional StatsParameters stats = 5;
    optional CrossParameters cross = 6;
  }
"""

from google.protobuf import descriptor_pb2
from google.protobuf import descriptor_pool
from google.protobuf import message_factory

_PACKAGE = 'moist_lm'
_FILE_NAME = 'moist_lm/base/parameters.proto'

_FieldProto = descriptor_pb2.FieldDescriptorProto

_SCALAR_TYPES = {
    'double': _FieldProto.TYPE_DOUBLE,
    'int32': _FieldProto.TYPE_INT32,
    'bool': _FieldProto.TYPE_BOOL,
    'string': _FieldProto.TYPE_STRING,
}

# Each field is described by (name, number, type, repeated, default).
_SCHEMA = (
    ('GridParameters', (
        ('itot', 1, 'int32', False, '8'),
        ('jtot', 2, 'int32', False, '8'),
        ('ktot', 3, 'int32', False, '32'),
        ('xsize', 4, 'double', False, '3200.0'),
        ('ysize', 5, 'double', False, '3200.0'),
        ('zsize', 6, 'double', False, '3200.0'),
        ('z', 7, 'double', True, None),
        ('spatial_order', 8, 'int32', False, '2'),
        ('npx', 9, 'int32', False, '1'),
    )),
    ('ThermoParameters', (
        ('ps', 1, 'double', False, None),
        ('crosslist', 2, 'string', True, None),
        ('swupdatebasestate', 3, 'bool', False, 'false'),
        ('thl_profile', 4, 'double', True, None),
        ('qt_profile', 5, 'double', True, None),
        ('max_saturation_iterations', 6, 'int32', False, '100'),
        ('saturation_tolerance', 7, 'double', False, '1e-05'),
    )),
    ('ScalarViscosity', (
        ('name', 1, 'string', False, None),
        ('value', 2, 'double', False, None),
    )),
    ('FieldsParameters', (
        ('svisc', 1, 'ScalarViscosity', True, None),
    )),
    ('DiffusionParameters', (
        ('scheme', 1, 'string', False, 'smag2'),
        ('tpr', 2, 'double', False, '0.3333333333333333'),
    )),
    ('StatsParameters', (
        ('enabled', 1, 'bool', False, 'true'),
        ('masks', 2, 'string', True, None),
    )),
    ('CrossParameters', (
        ('jxz', 1, 'int32', True, None),
        ('kxy', 2, 'int32', True, None),
    )),
    ('MoistLMParameters', (
        ('grid', 1, 'GridParameters', False, None),
        ('thermo', 2, 'ThermoParameters', False, None),
        ('fields', 3, 'FieldsParameters', False, None),
        ('diffusion', 4, 'DiffusionParameters', False, None),
        ('stats', 5, 'StatsParameters', False, None),
        ('cross', 6, 'CrossParameters', False, None),
    )),
)


def _build_file_descriptor() -> descriptor_pb2.FileDescriptorProto:
  """Builds the file descriptor of the configuration schema."""
  file_proto = descriptor_pb2.FileDescriptorProto()
  file_proto.name = _FILE_NAME
  file_proto.package = _PACKAGE
  file_proto.syntax = 'proto2'

  for message_name, fields in _SCHEMA:
    message = file_proto.message_type.add()
    message.name = message_name
    for name, number, field_type, repeated, default in fields:
      field = message.field.add()
      field.name = name
      field.number = number
      field.label = (
          _FieldProto.LABEL_REPEATED if repeated else _FieldProto.LABEL_OPTIONAL
      )
      if field_type in _SCALAR_TYPES:
        field.type = _SCALAR_TYPES[field_type]
      else:
        field.type = _FieldProto.TYPE_MESSAGE
        field.type_name = f'.{_PACKAGE}.{field_type}'
      if default is not None:
        field.default_value = default

  return file_proto


_POOL = descriptor_pool.Default()
_POOL.AddSerializedFile(_build_file_descriptor().SerializeToString())


def _message_class(name: str):
  return message_factory.GetMessageClass(
      _POOL.FindMessageTypeByName(f'{_PACKAGE}.{name}')
  )


GridParameters = _message_class('GridParameters')
ThermoParameters = _message_class('ThermoParameters')
ScalarViscosity = _message_class('ScalarViscosity')
FieldsParameters = _message_class('FieldsParameters')
DiffusionParameters = _message_class('DiffusionParameters')
StatsParameters = _message_class('StatsParameters')
CrossParameters = _message_class('CrossParameters')
MoistLMParameters = _message_class('MoistLMParameters')

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

"""Commonly used types in the moist thermodynamics library."""

from typing import TypeAlias, Union

import numpy as np
import tensorflow as tf

# All thermodynamic kernels run in double precision.
TF_DTYPE = tf.float64
NP_DTYPE = np.float64

# A 3D field is a single `tf.Tensor` with shape [nz, nx, ny], including ghost
# cells in all dimensions.
FlowFieldVal: TypeAlias = tf.Tensor

# A vertical profile, indexed by level, including the vertical ghost cells.
Profile: TypeAlias = Union[tf.Tensor, np.ndarray]

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

"""A library of commonly used physical constants."""

# The gas constant for dry air, in units of J/kg/K.
R_D = 287.04

# The gas constant for water vapor, in units of J/kg/K.
R_V = 461.5

# The ratio of the gas constants of dry air and water vapor, dimensionless.
EP = R_D / R_V

# The constant pressure heat capacity of dry air, in units of J/kg/K.
CP = 1005.0

# The latent heat of vaporization, in units of J/kg.
LV = 2.5e6

# The melting point of water, in units of K.
T_MELT = 273.15

# The reference pressure of the Exner function, in units of Pa.
P0 = 1.0e5

# The gravitational acceleration constant, in units of N/kg.
G = 9.81

# Coefficients of the 7th order polynomial fit of the Exner function in
# (p - P0).
EXNER_POLY = (
    2.85611940298507510698e-06,
    -1.02018879928714644313e-11,
    5.82999832046362073082e-17,
    -3.95621945728655163954e-22,
    2.93898686274077761686e-27,
    -2.30925409555411170635e-32,
    1.88513914720731231360e-37,
)

# Coefficients of the 8th order polynomial fit of the saturation vapor pressure
# over liquid water in (T - T_MELT), in units of Pa.
ESAT_POLY = (
    0.6105851e+03,
    0.4440316e+02,
    0.1430341e+01,
    0.2641412e-01,
    0.2995057e-03,
    0.2031998e-05,
    0.6936113e-08,
    0.2564861e-11,
    -.3704404e-13,
)

# The lower bound of (T - T_MELT) for which the saturation vapor pressure
# polynomial is valid.
ESAT_T_MIN_OFFSET = -80.0

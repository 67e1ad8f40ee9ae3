# Business logic services - reset lifecycle, directory, audit, email
